"""
One-off Sync Script

用法:
  python -m scripts.run_sync                          # 使用环境变量配置
  python -m scripts.run_sync --config sync.yaml       # JSON / YAML 配置文件
  python -m scripts.run_sync --contexts dev,prod --resources pods
  python -m scripts.run_sync --messages               # 输出宿主协议消息而不写库
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from kubesync.core.exceptions import CustomException
from kubesync.schemas.sync import TableOptions
from kubesync.services.selection_service import load_sync_spec
from kubesync.services.sink import MessageSink
from kubesync.services.sync_service import run_sync


def _print_message(message) -> None:
    print(json.dumps(message.model_dump(mode="json"), ensure_ascii=False))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="同步 Kubernetes 资源清单到数据库")
    parser.add_argument("--config", help="同步配置文件（JSON 或 YAML）")
    parser.add_argument("--database-url", help="数据库连接地址")
    parser.add_argument("--contexts", help="逗号分隔的上下文列表，空表示全部")
    parser.add_argument("--resources", help="逗号分隔的资源类型列表，空表示全部")
    parser.add_argument("--tables", help="逗号分隔的表白名单（支持通配符）")
    parser.add_argument("--skip-tables", help="逗号分隔的表黑名单")
    parser.add_argument("--messages", action="store_true", help="以 JSON 行输出表定义与插入消息")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    raw = {}
    if args.config:
        try:
            raw = load_sync_spec(Path(args.config).read_text(encoding="utf-8"), require_database=False).model_dump()
        except (OSError, CustomException) as e:
            print(f"配置读取失败: {e}", file=sys.stderr)
            return 2
    if args.database_url:
        raw["database_url"] = args.database_url
    if args.contexts:
        raw["contexts"] = args.contexts
    if args.resources:
        raw["resources"] = args.resources

    table_options = None
    if args.tables or args.skip_tables:
        table_options = TableOptions(tables=args.tables or [], skip_tables=args.skip_tables or [])

    sink = MessageSink(emit=_print_message) if args.messages else None
    try:
        report = asyncio.run(run_sync(raw, table_options=table_options, sink=sink))
    except CustomException as e:
        print(f"同步失败: [{e.code}] {e.message}", file=sys.stderr)
        return 2

    out = sys.stderr if args.messages else sys.stdout
    print(json.dumps(report.model_dump(mode="json"), ensure_ascii=False, indent=2), file=out)
    return 1 if report.issues else 0


if __name__ == "__main__":
    sys.exit(main())
