"""
注文ライフサイクルの純粋なパイプライン群。

各パイプラインは閉じた状態集合に対するステージ関数の列で、
I/O を一切行わない。外部データは呼び出し側が渡す照会関数経由で参照する。
"""
