"""
Services Layer for the Revenue-Cycle Claims Engine.

Modules:
- claim_state_machine: legal (status, trigger) table
- scrub_engine: rule-driven claim scrub
- claim_lifecycle: the only writer of claim status
- remittance_reconciliation: applies payer remittances
"""
