"""
OCR engines for scanned PDFs.
"""
