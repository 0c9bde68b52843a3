"""
Central constants for the proposal system.
"""
from __future__ import annotations

PROPOSAL_STATUSES = ("DRAFT", "SUBMITTED", "APPROVED", "SENT", "ACCEPTED", "REJECTED")

# Proposal numbers start at PROP-1000.
PROPOSAL_NUMBER_START = 1000
PROPOSAL_NUMBER_PREFIX = "PROP-"

DEFAULT_PROPOSAL_TITLE = "IoT / CCTV / BMS"

DEFAULT_TERMS_CONDITIONS = """Terms & Conditions:
1. GST @ 18% extra as applicable.
2. Quoted prices are inclusive of Supply and Commissioning.
3. 10% advance against material, 40% against delivery of material.
4. 10% against Testing & Commissioning against PBG of assured energy saving year on year.
5. Product warranty as per OEM.
6. Payment due within 15 days of invoice issuance.
7. Delivery within 4 to 6 weeks after receipt of confirmed purchase order along with advance payment.
8. Bill will be submitted for committed savings.
9. Confidentiality Agreement: Both parties agree to keep all project-related information confidential and not disclose to third parties without mutual consent.

Technical Points to be noted:
• Power supplies to DDC Controllers/Panels, Sensors & Actuators will be in Client scope.
• Internet connectivity and SIM purchase or recharge, if needed, will be in client scope."""

# Fields a profile change request may cover.
PROFILE_FIELDS = ("first_name", "last_name", "email", "password")
