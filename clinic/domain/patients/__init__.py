"""Patient domain - patient records and visits"""
