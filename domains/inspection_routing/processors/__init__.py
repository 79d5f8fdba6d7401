"""
Inspection Routing Processors

Per-image processing stages:
- stability.py - Wait until the writer has released the image
- router.py - PASS/FAIL decisions from the classifier answer
- result_store.py - Output tree and idempotency check
- activity_log.py - Serialized log.txt under the output root
- pipeline.py - The processing routine tying them together
"""
