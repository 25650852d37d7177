import unittest

from chopphub.ui_strings import (
    LOAN_STATUS_LABELS,
    MESSAGES,
    PAYMENT_STATUS_LABELS,
    error_message,
    payment_status_label,
    success_message,
)


class UiStringsTest(unittest.TestCase):
    def test_payment_status_labels(self) -> None:
        self.assertEqual(set(PAYMENT_STATUS_LABELS), {"Paid", "Unpaid"})
        self.assertEqual(payment_status_label("Paid"), "Pago")
        self.assertEqual(payment_status_label(None), "-")

    def test_loan_status_labels_cover_lifecycle(self) -> None:
        self.assertEqual(set(LOAN_STATUS_LABELS), {"active", "partially_returned", "returned"})

    def test_messages_are_non_empty(self) -> None:
        for category, bucket in MESSAGES.items():
            for key, value in bucket.items():
                self.assertTrue(value.strip(), msg=f"{category}.{key}")

    def test_unknown_key_falls_back(self) -> None:
        self.assertEqual(error_message("nao_existe"), "nao_existe")
        self.assertEqual(error_message("nao_existe", "Falhou"), "Falhou")
        self.assertEqual(success_message("order_created"), "Pedido criado!")


if __name__ == "__main__":
    unittest.main()
