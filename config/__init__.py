"""Configuration package for Memwatch"""
