# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI plugin for the backup admin endpoints.
"""

from dbsnap.integrations.fastapi import (
    dbsnap_lifespan,
    register_dbsnap_routes,
    setup_dbsnap_plugin,
    verify_api_key,
    verify_restore_api_key,
)

__all__ = [
    "dbsnap_lifespan",
    "register_dbsnap_routes",
    "setup_dbsnap_plugin",
    "verify_api_key",
    "verify_restore_api_key",
]
