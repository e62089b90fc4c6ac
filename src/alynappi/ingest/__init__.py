"""Document ingestion: OCR output to page-attributed, embedded sections."""
