"""
Identity Document Eligibility Pipeline

This package contains the complete pipeline for identity document verification:
- MRZ detection, parsing and check digit validation
- Fusion of per-image extraction results into one canonical record
- Policy-driven eligibility rules
- Confidence scoring and summary synthesis
"""

__version__ = "1.0.0"
