"""Admissions outreach caller: lead deduplication and AI demo-booking calls."""
