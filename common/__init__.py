"""Shared schemas, configuration, logging and ledger access"""
