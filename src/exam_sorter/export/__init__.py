"""
Export module: page stamping and final per-problem documents.
"""

from exam_sorter.export.stamper import WatermarkStyle, stamp_page, render_page, count_pages

__all__ = ["WatermarkStyle", "stamp_page", "render_page", "count_pages"]
