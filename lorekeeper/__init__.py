"""
Lorekeeper: a REST facade over an object-storage bucket.

This package serves password-gated, versioned JSON articles, flat category
records and decks of card images, all kept as plain objects in one
S3-compatible bucket.
"""
