from __future__ import annotations
import os

# Command used to install ExecConfig.packages; package names are appended.
INSTALL_COMMAND = os.environ.get("GATECI_INSTALL_COMMAND", "apt-get install -y")
# Tail of combined step output kept on each StepOutcome.
OUTPUT_LIMIT = int(os.environ.get("GATECI_OUTPUT_LIMIT", "4000"))
# Seconds between SIGTERM and SIGKILL when a step is cancelled.
KILL_GRACE = float(os.environ.get("GATECI_KILL_GRACE", "5"))
# How often a running step checks for cancellation.
POLL_INTERVAL = float(os.environ.get("GATECI_POLL_INTERVAL", "0.1"))
