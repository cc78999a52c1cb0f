"""Grocery Receipt Scanner.

Turns a photographed paper receipt into itemized grocery purchases:
OpenCV image cleanup, multi-engine OCR, a tolerant receipt line parser,
and rule-based categorization with predicted expiry dates.
"""
