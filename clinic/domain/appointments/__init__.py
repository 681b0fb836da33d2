"""Appointment domain - booking, Calendly webhooks and dashboard edits"""
