"""Notification domain - dashboard feed and real-time push"""
