"""Fayda ID extraction and normalization.

Turns eFayda national-ID PDFs into normalized identity records: the
embedded text layer is mined first, Tesseract OCR on the card images
recovers what the text layer misses, and every value is canonicalized
(bilingual names and addresses, dual-calendar dates, phone and ID
numbers) before a record is assembled.
"""

__version__ = "1.0.0"
