"""External service clients and the dashboard broadcaster"""
