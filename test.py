"""
Manual smoke run against a live server:

    sd-chat-bridge --sd-bin ./sd --diffusion-model ... --vae ... --clip_l ... --t5xxl ...
    python test.py [base_url]
"""
import sys

import requests

BASE = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8080"

health = requests.get(f"{BASE}/health", timeout=10)
print(f"health:  {health.status_code} {health.text!r}")

response = requests.post(
    f"{BASE}/v1/chat/completions",
    json={
        "model": "flux1-schnell",
        "messages": [{"role": "user", "content": "a red cat sitting on a windowsill"}],
    },
    timeout=600,
)

print(f"status:  {response.status_code}")

if response.status_code == 200:
    data = response.json()
    content = data["choices"][0]["message"]["content"]
    print(f"id:      {data['id']}")
    print(f"content: {content[:120]}")

    if content.startswith("![output]("):
        link = content[len("![output]("):-1]
        image = requests.get(f"{BASE}{link}", timeout=30)
        with open("output.png", "wb") as f:
            f.write(image.content)
        print(f"image:   saved to output.png ({len(image.content):,} bytes)")
else:
    print(response.text)
