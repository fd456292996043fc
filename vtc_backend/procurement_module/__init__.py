"""Suppliers, requisitions, purchase orders and goods receiving."""
