"""Risk Classifier plugin."""

manifest = {
    "title": "Risk Classifier",
    "summary": (
        "Upload a CSV, map its columns onto a declared schema, train a small "
        "binary classifier and inspect threshold metrics and the ROC curve."
    ),
    "blueprint": "risk_classifier",
    "category": "Machine Learning",
}


__all__ = ["manifest"]
