"""
epiwalk - Methylation and Histone Mark Walkthrough

Fetches RRBS methylation and ChIP-seq broadPeak tracks for one cell type,
aligns them to promoters and renders aggregate and single-locus figures.
"""

__version__ = "0.1.0"
__author__ = "epiwalk contributors"
