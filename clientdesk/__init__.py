# ClientDesk - Core Library
"""
Client records, monthly billing, payment reconciliation and task management.

The api package serves this library over REST/JSON; the CLI in
clientdesk.cli drives the same functions from a terminal.
"""

__version__ = "1.0.0"
