from __future__ import annotations

from typing import Literal

# Overwritten during packaging so release artifacts bake the build flavor into
# the installed agent. Local development defaults to "dev".
BUILD_FLAVOR: Literal["prod", "dev", "test"] = "dev"
