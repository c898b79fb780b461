"""
Identity verification upload service.

This package provides a FastAPI application that accepts a selfie and both
sides of an ID document, forwards the images to a remote image store and
keeps a record of each verification for review by an administrator.
"""
