"""Checks: the units of work polled by the dispatcher."""

from .base import Check, CheckKind, CheckResult, Status, overall_status
from .command import CommandCheck
from .rest import HttpCheck
