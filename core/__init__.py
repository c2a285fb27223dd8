"""
Dispatch data processing.

- Dispatch statistics aggregation
- Duplicate detection for uploaded rows
- Master data reconciliation onto dispatch records
- Master table maintenance
- Single-row dispatch and dispatch result maintenance
"""
