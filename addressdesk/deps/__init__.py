"""Beginner-friendly overview for this module.

WHAT: Handles the logic defined in "addressdesk/deps/__init__.py" for the Address Desk app.
WHEN: Invoked when its functions or classes are imported and called.
WHY: Provides supporting behaviour so the service runs smoothly.
HOW: Read the inline comments and docstrings below for the step-by-step flow.

File: addressdesk/deps/__init__.py
"""


# Marks `addressdesk.deps` as a real Python package so imports like
# `from addressdesk.deps.services import get_remote_service` work reliably.
