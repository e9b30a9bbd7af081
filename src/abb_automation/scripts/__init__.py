"""Operator command-line entry points."""

# Live workflow ids on the Angels Bail Bonds n8n instance
DAILY_PROGRESS_WORKFLOW_ID = "ZmIN72JrIyb4h1Ra"
SEO_REPORT_WORKFLOW_ID = "9Xw3q2PtO1LPC4JH"
