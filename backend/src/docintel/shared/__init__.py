"""Shared configuration, errors and infrastructure helpers"""
