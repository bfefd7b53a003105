"""Local HTTP surface for the PDF rasterizer."""
