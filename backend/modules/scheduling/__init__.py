"""Shift scheduling: shifts, status history and the shift lifecycle"""
