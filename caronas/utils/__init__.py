"""Caronas Utilities Package"""
