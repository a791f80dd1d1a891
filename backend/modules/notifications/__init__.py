"""Notification delivery: preferences, fatigue control and channel dispatch"""
