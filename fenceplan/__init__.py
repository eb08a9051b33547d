"""Fence, gate and decking layout engine.

Reusable, non-UI planning logic lives here:
- models: plain dataclasses shared by every module
- geometry: network editing, post classification, panel and board packing,
  gate placement
- engine: the LayoutEngine controller owning one EngineState
- cut_list / serialization: read-only consumers of that state

Applications configure logging handlers; the package only logs.
"""

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
