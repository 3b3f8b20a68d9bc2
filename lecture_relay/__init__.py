"""
lecture_relay
~~~~~~~~~~~~~

课堂幻灯片 + 实时字幕中继服务。
"""
