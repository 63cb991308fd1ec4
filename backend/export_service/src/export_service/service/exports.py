import logging

from ..config import settings
from ..exceptions import ProductDesignMissingError, ProductNotFoundError
from ..models.schemas import (
    ExportDownloadRequest,
    ExportDownloadResponse,
    Product,
    ProductDesign,
)
from ..utils.product_store import ProductStore
from .downloader import ExportDownloader

logger = logging.getLogger(settings.SERVICE_NAME + ".exports")


def attach_export_url(product: Product, export_url: str) -> Product:
    """
    Return a copy of `product` whose design points at `export_url`.
    Every other product and design field is carried over untouched.
    """
    design = product.canva_design.to_document() if product.canva_design else {}
    design["designExportUrl"] = export_url

    document = product.to_document()
    document["canvaDesign"] = ProductDesign.model_validate(design).to_document()
    return Product.model_validate(document)


async def download_export(
    request: ExportDownloadRequest,
    store: ProductStore,
    downloader: ExportDownloader,
) -> ExportDownloadResponse:
    """
    Download an exported design and, when a product id is given, point the
    product's design at the downloaded copy.

    Exported image URLs from the design tool expire after some time, so the
    export is copied into the publicly served exports directory.

    Args:
        request: Product id (optional) and the temporary export URL
        store: Product database to look up and update the product in
        downloader: Downloader writing into the exports directory

    Returns:
        ExportDownloadResponse with the public URL of the local copy

    Raises:
        ProductNotFoundError: the product id is unknown
        ProductDesignMissingError: the product has no design
        ExportServiceError: any other failure, after cleanup
    """
    # Product checks come first so nothing is downloaded for a bad request
    product = None
    if request.product_id:
        product = store.get_product(request.product_id)
        if product is None:
            raise ProductNotFoundError(request.product_id)
        if product.canva_design is None:
            raise ProductDesignMissingError(request.product_id)

    export = await downloader.download(request.exported_design_url)

    if product is not None:
        logger.info(f"Updating product {product.id} with export URL: {export.public_url}")
        store.write_product(attach_export_url(product, export.public_url))

    return ExportDownloadResponse(downloaded_export_url=export.public_url)
