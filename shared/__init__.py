"""
共享模块
"""
