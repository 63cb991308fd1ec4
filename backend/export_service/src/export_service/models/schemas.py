from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class AppBaseModel(BaseModel):
    """Base Pydantic model with common configuration."""

    model_config = {
        "extra": "forbid",  # Forbid extra fields not defined in the model
        "populate_by_name": True,  # Allow using field names as well as the camelCase aliases
    }


class StoredRecord(BaseModel):
    """
    Base model for documents read from the JSON database.
    Unknown keys are kept so that a read-modify-write cycle never drops data
    owned by other parts of the shop backend.
    """

    model_config = {"extra": "allow", "populate_by_name": True}

    def to_document(self) -> Dict[str, Any]:
        """Serialize back to the camelCase shape stored on disk."""
        return self.model_dump(by_alias=True, exclude_unset=True)


# --- Database records ---


class ProductDesign(StoredRecord):
    """
    Design metadata linking a product to an export produced by the design tool.
    `designExportUrl` initially points at the tool's temporary export URL and is
    overwritten with the locally served copy once downloaded.
    """

    design_id: Optional[str] = Field(default=None, alias="designId")
    design_title: Optional[str] = Field(default=None, alias="designTitle")
    design_export_url: Optional[str] = Field(default=None, alias="designExportUrl")


class Product(StoredRecord):
    """
    A product record, identified by an opaque id.
    Numeric ids are kept as stored and compared by their string form.
    """

    id: Union[str, int]
    name: Optional[str] = None
    canva_design: Optional[ProductDesign] = Field(default=None, alias="canvaDesign")


class ProductDatabase(StoredRecord):
    """Top level structure of the JSON database file."""

    products: List[Product] = Field(default_factory=list)


# --- API schemas ---


class ExportDownloadRequest(AppBaseModel):
    """Input model for POST /exports/download."""

    # Clients may send the whole design object along, unknown keys are dropped
    model_config = {**AppBaseModel.model_config, "extra": "ignore"}

    product_id: Optional[Union[str, int]] = Field(
        default=None,
        alias="productId",
        description="Optional id of the product whose design export should be replaced.",
    )
    exported_design_url: str = Field(
        alias="exportedDesignUrl",
        description="Temporary URL of the exported design returned by the design tool.",
    )

    @field_validator("product_id")
    @classmethod
    def normalize_product_id(cls, value: Optional[Union[str, int]]) -> Optional[str]:
        """Product ids are opaque strings, an empty one means no product was given."""
        if value is None or value == "":
            return None
        return str(value)


class ExportDownloadResponse(AppBaseModel):
    """Output model for a successful export download."""

    downloaded_export_url: str = Field(
        alias="downloadedExportUrl",
        description="Public URL of the locally stored copy of the export.",
    )


class ErrorResponse(AppBaseModel):
    """Body of every error response returned by the export endpoints."""

    error: str
    details: Optional[str] = None
