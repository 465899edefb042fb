instructions_md = (
"""
# Translation Ranking — Annotator Instructions

Thank you for taking part in this translation study. Please read these instructions before you start.

---

## What you are doing in this app

You will see a small batch of **source sentences** (usually 5). Each sentence comes with **7 candidate translations**.
For every sentence you will:

1. **Rank** the translations from best (top) to worst (bottom).
2. **Comment** on your ranking: what you liked or disliked about the options.

The translations are shown in a **random order** that is different for every annotator.
Do not try to guess which system produced which translation. Rate what you see.

---

## 1) Ranking the translations

- Use the **↑** and **↓** buttons to move a translation up or down, or pick a new position from the **Move to** box.
- The number on the left is the current rank (1 = best).
- You **must change the order** for every sentence. The starting order is random, so leaving it untouched is not a ranking.

## 2) Commenting

- Every sentence needs a **non-empty comment** explaining your reasoning.
- A sentence or two is enough. Mention fluency, meaning errors, terminology, or anything that decided your order.

---

## 3) Submitting

- The **Submit annotations** button stays disabled until every sentence in the batch has been re-ordered **and** commented.
- If something is missing, the app lists which sentence needs what.
- Your rankings are saved directly to the shared annotation sheet when you submit.

If submission fails (for example a network problem), **your work is kept**. Press Submit again.
If a sentence reports that all its annotation slots are already taken, another annotator finished it first:
use **Skip this sentence** and submit the rest.

---

## 4) Finishing

After a successful submission you will see a confirmation, and, if this study uses one, a link to complete your participation.

---

Thank you for your careful work — consistency matters more than speed.
""".strip()
)
