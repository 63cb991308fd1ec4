# Pydantic models for the export service: request/response schemas
# and the records kept in the JSON product database.
