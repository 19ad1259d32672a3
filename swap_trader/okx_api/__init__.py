"""OKX V5 REST API helpers"""
