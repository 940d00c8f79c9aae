# Pydantic records for upstream payloads and sync results
