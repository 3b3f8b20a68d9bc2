"""
手动冒烟脚本：对一个已启动的中继服务（``python -m lecture_relay.main``）跑一遍完整流程。

  1. /health 存活检查
  2. 主讲人连接，观众连接并收到 sync
  3. 上传课件、翻页、推字幕，观众逐条收到
  4. 第二个主讲人顶掉第一个
  5. 连续上传触发 429 限流
"""
import asyncio
import json
import os

import httpx
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

BASE = os.getenv("RELAY_URL", "http://127.0.0.1:5174")
WS_BASE = BASE.replace("http://", "ws://").replace("https://", "wss://")
CODE = "SMOKE1"


async def check_health() -> None:
    print("=" * 50)
    print(" 验证 /health ")
    print("=" * 50)
    async with httpx.AsyncClient() as client:
        resp = await client.get(f"{BASE}/health")
        print(f"状态码: {resp.status_code} | {resp.json()}")


async def check_relay() -> None:
    print("\n" + "=" * 50)
    print(" 验证主讲人 → 观众中继 ")
    print("=" * 50)

    async with connect(f"{WS_BASE}/ws?code={CODE}&role=host") as host, \
            connect(f"{WS_BASE}/ws?code={CODE.lower()}") as viewer:
        print(f"主讲人收到: {await host.recv()}")
        print(f"观众收到:   {await viewer.recv()}")

        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{BASE}/upload",
                params={"code": CODE, "numPages": 10},
                files={"pdf": ("smoke.pdf", b"%PDF-1.4 smoke", "application/pdf")},
            )
            print(f"上传结果: {resp.status_code} | {resp.json()}")

        print(f" -> 观众收到课件: {await viewer.recv()}")
        print(f" -> 观众收到页码: {await viewer.recv()}")

        await host.send(json.dumps({"type": "slide", "page": 5, "numPages": 10}))
        print(f" -> 观众收到翻页: {await viewer.recv()}")

        await host.send("garbage frame")
        await host.send(json.dumps({"type": "transcript", "text": "大家好"}))
        print(f" -> 观众收到字幕: {await viewer.recv()}")

        async with connect(f"{WS_BASE}/ws?code={CODE}&role=host") as new_host:
            print(f"新主讲人收到: {await new_host.recv()}")
            try:
                while True:
                    await host.recv()
            except ConnectionClosed as e:
                print(f"✅ 旧主讲人被关闭: code={e.rcvd.code if e.rcvd else None}")


async def check_upload_rate_limit() -> None:
    print("\n" + "=" * 50)
    print(" 验证上传限流 (期望: 超过 UPLOAD_RATE_LIMIT 后返回 429) ")
    print("=" * 50)
    async with httpx.AsyncClient() as client:
        codes = []
        for _ in range(35):
            resp = await client.post(
                f"{BASE}/upload",
                params={"code": "RATE"},
                files={"pdf": ("r.pdf", b"%PDF", "application/pdf")},
            )
            codes.append(resp.status_code)
        print(f"状态码返回: {codes}")
        if 429 in codes:
            print("✅ 成功: 触发了 HTTP 429 Too Many Requests 限流！")
        else:
            print("❌ 失败: 没有触发 429 限流，或服务器未启动。")


async def main() -> None:
    await check_health()
    await check_relay()
    await check_upload_rate_limit()


if __name__ == "__main__":
    asyncio.run(main())
