from .gst_export import export_gst_report

__all__ = ["export_gst_report"]
