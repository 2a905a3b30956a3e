"""
Order Service: 例外定義

パイプラインは業務上の失敗を例外では表現しない (Invalid 状態として返す)。
ここで定義するのはリポジトリ境界で発生するインフラ側の例外のみ。
"""


class OrderManagementError(Exception):
    """Order Service の例外の基底クラス"""


class DuplicateOrderNumberError(OrderManagementError):
    """採番した注文番号が既に保存されている (一意制約違反)"""

    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order number already exists: {order_number}")
