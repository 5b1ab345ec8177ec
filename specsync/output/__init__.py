"""
Output formatters for specification reports
"""

from specsync.output.json_formatter import ReportFormatter

__all__ = ['ReportFormatter']
