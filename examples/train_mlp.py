"""
Train a simple MLP on synthetic data with ndgrad autograd.

Parameters are plain NDArrays with attached gradient buffers; the forward
pass runs under autograd.record() and dropout is active only while training.
"""

import numpy as np

import ndgrad as nd
from ndgrad import autograd, ops


# Synthetic dataset: sum of features > 0
def generate_data(n_samples=1000):
    """Generate synthetic classification data."""
    np.random.seed(42)
    X = np.random.randn(n_samples, 4).astype(np.float32)
    y = (X.sum(axis=1) > 0).astype(np.float32).reshape(-1, 1)
    return X, y


def init_params(input_dim=4, hidden_dim=8, output_dim=1):
    """Random weights and zero biases, each with a gradient buffer."""
    rng = np.random.default_rng(0)
    params = [
        nd.array(rng.standard_normal((input_dim, hidden_dim)) * 0.5, name='w1'),
        nd.zeros(1, hidden_dim),
        nd.array(rng.standard_normal((hidden_dim, output_dim)) * 0.5, name='w2'),
        nd.zeros(1, output_dim),
    ]
    for p in params:
        p.attach_grad()
    return params


def forward(params, x):
    w1, b1, w2, b2 = params
    h = (x @ w1 + b1).relu()
    h = ops.dropout(h, p=0.1)
    return (h @ w2 + b2).sigmoid()


def train(params, X, y, epochs=100, lr=0.5):
    """Train the model with manual SGD."""
    X_arr = nd.array(X)
    y_arr = nd.array(y)

    for epoch in range(epochs):
        with autograd.record():
            pred = forward(params, X_arr)
            # MSE loss
            loss = ((pred - y_arr) ** 2).mean()

        loss.backward()

        # Update weights (new arrays, fresh buffers)
        params = [nd.array(p.asnumpy() - lr * p.grad.asnumpy(), name=p.name) for p in params]
        for p in params:
            p.attach_grad()

        if (epoch + 1) % 10 == 0:
            print(f"Epoch {epoch+1:3d}: Loss = {loss.item():.6f}")

    return params


def main():
    print("=" * 60)
    print("Training MLP on Synthetic Data (ndgrad)")
    print("=" * 60)

    X, y = generate_data(n_samples=100)
    print(f"\nDataset: {X.shape[0]} samples, {X.shape[1]} features")
    print(f"Positive class: {y.mean():.2%}")

    params = init_params()
    print(f"\nModel: {sum(p.size for p in params)} parameters")

    print("\nTraining...")
    params = train(params, X, y, epochs=100)

    # Final evaluation (dropout off, nothing recorded)
    with autograd.predict_mode():
        pred = forward(params, nd.array(X))
    final_loss = ((pred - nd.array(y)) ** 2).mean()
    accuracy = ((pred.asnumpy() > 0.5) == y).mean()

    print(f"\nFinal Loss: {final_loss.item():.6f}")
    print(f"Accuracy: {accuracy:.2%}")

    # Export the trained forward pass
    with autograd.record(train_mode=False):
        out = forward(params, nd.array(X[:1]))
    print(f"\nExported symbol arguments: {autograd.get_symbol(out).list_arguments()}")
    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
