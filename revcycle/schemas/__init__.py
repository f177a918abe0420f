"""
Pydantic Schemas for the Revenue-Cycle Claims API.
"""
