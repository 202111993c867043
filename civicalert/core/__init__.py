"""Core configuration, persistence, security and monitoring"""
