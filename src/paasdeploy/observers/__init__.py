# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/observers/__init__.py

from .dispatcher import EventBus, ProgressReporter
from .events import FAILED, OK, RUNNING, LogLine, ProvisionSummary, StepEvent

__all__ = ["EventBus", "ProgressReporter", "StepEvent", "LogLine", "ProvisionSummary", "RUNNING", "OK", "FAILED"]
