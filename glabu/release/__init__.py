"""Release workflow.

- model: values flowing through a release (version, targets, manifest)
- errors: stage-tagged error payload
- build / compress / install: single external steps
- orchestrator: sequencing of the whole run
"""

from __future__ import annotations
