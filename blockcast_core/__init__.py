# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
BlockCast Core Engine
=====================

Market resolution and dispute adjudication core.
"""

__version__ = "0.4.0"

# Versioning for persisted decisions and settlement plans (audit replay).
# When changing scoring weights or reward economics, bump these strings.
SCORING_VERSION = "three_signal_v3"
SETTLEMENT_VERSION = "dispute_rewards_v2"
