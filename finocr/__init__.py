"""Financial document OCR core.

Hybrid digital-text / OCR extraction for scanned and digitally authored
receipts, sales records, and bank statements, producing per-page text
and statistics for downstream credit assessment.
"""

__version__ = "0.1.0"
