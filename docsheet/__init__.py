"""Docsheet: scanned-page OCR into structured spreadsheets.

Recognises selected pages of a PDF or image with Tesseract or a remote
OCR service, then turns the text into header-keyed rows using per-task
rules (corrections, junk-line filters, column separators) and exports
them as an Excel workbook.
"""
