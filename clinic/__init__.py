"""Clinic API - patient records, appointment lifecycle and dashboard notifications"""
