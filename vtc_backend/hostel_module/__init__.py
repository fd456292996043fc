"""Hostel buildings, rooms, beds, allocations and monthly fees."""
