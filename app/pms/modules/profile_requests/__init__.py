"""
Profile change approvals.

Users and admins ask for permission to edit named profile fields; a reviewer
approves or denies; an approval is consumed by the edit it allows.
"""
