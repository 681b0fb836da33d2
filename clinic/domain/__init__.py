"""Domain packages - repository, schemas, service and router per resource"""
