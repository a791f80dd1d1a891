"""Open shift pool: claims, offers, swaps and cross-restaurant matching"""
