from __future__ import annotations

from resumematch.core.runtime import Services, build_services


def get_services() -> Services:
    return build_services()
