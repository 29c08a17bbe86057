"""
Application services built on the data layer: demo data, bulk import,
follow-up views, dashboard analytics and outreach scheduling.
"""

from clinicrm.services.demo_data import DemoDataGenerator, DemoDataset, PATIENT_COUNT
from clinicrm.services.bulk_import import BulkImporter, ImportReport, write_template
from clinicrm.services.followups import (
    merge_follow_ups,
    filter_for_profile,
    filter_follow_ups,
    pending_follow_ups,
    recent_follow_ups,
)
from clinicrm.services.analytics import DashboardStats, compute_dashboard
from clinicrm.services.outreach import OutreachWindow, load_outreach_window

__all__ = [
    "DemoDataGenerator",
    "DemoDataset",
    "PATIENT_COUNT",
    "BulkImporter",
    "ImportReport",
    "write_template",
    "merge_follow_ups",
    "filter_for_profile",
    "filter_follow_ups",
    "pending_follow_ups",
    "recent_follow_ups",
    "DashboardStats",
    "compute_dashboard",
    "OutreachWindow",
    "load_outreach_window",
]
