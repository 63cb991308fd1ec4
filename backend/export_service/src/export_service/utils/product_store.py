import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..config import settings
from ..exceptions import ProductStoreError
from ..models.schemas import Product, ProductDatabase

logger = logging.getLogger(settings.SERVICE_NAME + ".product_store")


class DatabaseFileHandler(FileSystemEventHandler):
    """
    Watchdog event handler that detects changes to the database file
    and triggers a reload callback.
    """

    def __init__(self, database_path: Path, reload_callback: Callable[[], None]):
        self.database_path = database_path
        self.reload_callback = reload_callback
        logger.info(f"Watching for changes to database file: {database_path}")

    def on_modified(self, event):
        if not event.is_directory and Path(event.src_path) == self.database_path:
            logger.info(f"Detected change to database file: {event.src_path}")
            self.reload_callback()

    # Atomic writes by other tools show up as a move onto the watched path
    def on_moved(self, event):
        if not event.is_directory and Path(event.dest_path) == self.database_path:
            logger.info(f"Detected replacement of database file: {event.dest_path}")
            self.reload_callback()


class ProductStore:
    """
    JSON-file backed store for product records.

    The whole document is kept in memory and re-read whenever the file's
    modification time changes, so edits made by other processes are picked up
    on the next read. Writes replace the file atomically and keep every key of
    the document, including collections this service does not know about.
    """

    def __init__(self, database_path: Optional[Path] = None, enable_hot_reload: Optional[bool] = None):
        self.database_path = Path(database_path) if database_path else settings.get_database_path()
        self.database: Optional[ProductDatabase] = None
        self.last_modified_time: float = 0
        self.observer: Optional[Observer] = None
        self.lock = threading.RLock()

        if enable_hot_reload is None:
            enable_hot_reload = settings.ENABLE_HOT_RELOAD
        if enable_hot_reload:
            self._setup_file_watcher()
        else:
            logger.info("Hot reload is disabled. The database is reloaded on read when its mtime changes.")

    def _setup_file_watcher(self):
        """Set up a watchdog observer on the directory holding the database file."""
        try:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.observer = Observer(timeout=settings.FILE_WATCH_INTERVAL_SECONDS)
            handler = DatabaseFileHandler(self.database_path, self._reload_quietly)
            self.observer.schedule(handler, str(self.database_path.parent), recursive=False)
            self.observer.start()
            logger.info(f"File watcher started for {self.database_path}")
        except Exception as e:
            logger.error(f"Failed to set up file watcher: {e}", exc_info=True)
            self.observer = None

    def _reload_quietly(self):
        # Runs on the watchdog thread, errors are surfaced again on the next read()
        try:
            self.load()
        except ProductStoreError as e:
            logger.error(f"Reload of database file failed: {e}")

    def load(self) -> ProductDatabase:
        """
        Load the database file if it changed since the last load.
        A missing file is treated as an empty database.
        """
        with self.lock:
            if not self.database_path.exists():
                if self.database is None:
                    logger.warning(f"Database file not found, starting empty: {self.database_path}")
                    self.database = ProductDatabase()
                return self.database

            current_mtime = os.path.getmtime(self.database_path)
            if self.database is not None and current_mtime <= self.last_modified_time:
                return self.database

            logger.info(f"Loading products from {self.database_path}")
            try:
                with open(self.database_path, "r", encoding="utf-8") as f:
                    raw_data = json.load(f)
                self.database = ProductDatabase.model_validate(raw_data)
            except json.JSONDecodeError as e:
                raise ProductStoreError(
                    f"Failed to parse database file: {e}", {"path": str(self.database_path)}
                ) from e
            except ValidationError as e:
                raise ProductStoreError(
                    f"Database file has an unexpected structure: {e}", {"path": str(self.database_path)}
                ) from e
            except OSError as e:
                raise ProductStoreError(
                    f"Failed to read database file: {e}", {"path": str(self.database_path)}
                ) from e

            self.last_modified_time = current_mtime
            logger.info(f"Database loaded: {len(self.database.products)} products")
            return self.database

    def read(self) -> ProductDatabase:
        """Return the current database, reloading it from disk when needed."""
        return self.load()

    def list_products(self) -> List[Product]:
        return list(self.read().products)

    def get_product(self, product_id: str) -> Optional[Product]:
        """Return the product with the given id, or None if it does not exist."""
        for product in self.read().products:
            if str(product.id) == str(product_id):
                return product
        return None

    def write_product(self, product: Product) -> Product:
        """
        Insert or replace a product (matched by id) and persist the database.
        """
        with self.lock:
            database = self.load()
            products = list(database.products)
            for index, existing in enumerate(products):
                if str(existing.id) == str(product.id):
                    products[index] = product
                    break
            else:
                products.append(product)

            document = database.to_document()
            document["products"] = [p.to_document() for p in products]
            self._write_document(document)

            self.database = ProductDatabase.model_validate(document)
            self.last_modified_time = os.path.getmtime(self.database_path)
            logger.info(f"Product {product.id} written to {self.database_path}")
            return product

    def _write_document(self, document: dict):
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=self.database_path.name + ".",
            suffix=".tmp",
            dir=str(self.database_path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_name, self.database_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise ProductStoreError(
                f"Failed to write database file: {e}", {"path": str(self.database_path)}
            ) from e

    def stop_file_watcher(self):
        """Stop the file watcher if it's running."""
        if self.observer and self.observer.is_alive():
            logger.info("Stopping file watcher...")
            self.observer.stop()
            self.observer.join(timeout=2.0)
            logger.info("File watcher stopped.")


# Singleton instance shared by the API handlers
_store_instance: Optional[ProductStore] = None


def get_product_store() -> ProductStore:
    """
    Get the singleton instance of ProductStore.
    This ensures that there's only one instance watching the database file.
    """
    global _store_instance
    if _store_instance is None:
        _store_instance = ProductStore()
    return _store_instance


if __name__ == "__main__":
    # Print the stored products, then keep watching the file if hot reload is on
    store = get_product_store()
    for item in store.list_products():
        print(f"  - {item.id}: {item.name} (design: {bool(item.canva_design)})")

    if settings.ENABLE_HOT_RELOAD:
        try:
            print("\nWatching for changes to the database file. Press Ctrl+C to stop.")
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("\nStopping file watcher...")
        finally:
            store.stop_file_watcher()
