# Core business logic of the export service: downloading exported
# designs to local storage and linking them to product records.
