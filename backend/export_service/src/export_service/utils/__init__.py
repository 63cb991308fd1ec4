# Supporting utilities for the export service, such as the JSON-file
# backed product store and its file watcher.
