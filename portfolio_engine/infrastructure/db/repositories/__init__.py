"""Database repositories"""
