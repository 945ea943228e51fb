"""開発用の起動スクリプト（python run.py）。"""

from __future__ import annotations

import uvicorn

from monly.config import load_config


def main() -> None:
    # ポートだけ先に読む。残りの初期化は create_app() がワーカー内で行う
    port = load_config().port
    uvicorn.run(
        "monly.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=True,
    )


if __name__ == "__main__":
    main()
