# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""NetBird activity vocabulary."""

from .codes import ACTIVITY_TYPES, name_for, known_codes

__all__ = ["ACTIVITY_TYPES", "name_for", "known_codes"]
