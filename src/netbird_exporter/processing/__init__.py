# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Processing layer for the NetBird Events Exporter.
Reads events from SQLite, groups them into Loki streams and pushes them.
"""
