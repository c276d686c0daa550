"""
Relay Monitor - 中继状态采集服务

负责：
- 每 5s 并发拉取所有中继的状态
- 检测中继重启导致的计数归零，维护累计流量
- 每轮采集写入一条带时间戳的快照
- 提供状态页面和 REST API（含全体合计）
"""

__version__ = "1.0.0"
