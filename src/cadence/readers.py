#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import json
from pathlib import Path


def load_json(path: str | Path):
    with open(path, "r") as f:
        data = json.load(f)
    return data
